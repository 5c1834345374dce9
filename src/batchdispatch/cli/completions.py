from batchdispatch.cli.enums import HttpMethod


def complete_method(value: str):
    for method in HttpMethod.__members__.values():
        if method.startswith(value.upper()):
            yield method
