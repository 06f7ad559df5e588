import logging

logging.basicConfig(
    format='%(asctime)s [%(name)s] %(levelname)s: %(message)s',
    level=logging.INFO,
)


def set_debug(debug: bool):
    if debug:
        logging.getLogger('monodeploy.runner').setLevel(logging.DEBUG)
        logging.getLogger('monodeploy.utils').setLevel(logging.DEBUG)
