class ConfigurationError(Exception):
    pass


class CommandError(ValueError):
    returncode: int
    output: str

    def __init__(self, args: tuple, returncode: int, output: str = ''):
        super().__init__(f'{args[0]} exited with code {returncode}')
        self.returncode = returncode
        self.output = output


class DispatchError(Exception):
    pass
