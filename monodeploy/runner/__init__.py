from monodeploy.runner.pipeline import Pipeline

__all__ = ['Pipeline']
