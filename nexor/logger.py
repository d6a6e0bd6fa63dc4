import logging

LOGGER_NAME = "nexor"


def config_logger(logging_level):
    """
    Python custom logging initialization

    Timestamp and logger name are added to every record so client
    output can be told apart from the application using it
    """
    logging.basicConfig(
        format='%(asctime)s %(levelname)-8s %(name)s %(message)s',
        level=logging_level,
        datefmt='%Y-%m-%d %H:%M:%S',
    )
    logging.getLogger("pika").setLevel(logging.WARNING)


def enable_debug(debug):
    """Lower the package logger to DEBUG when the client runs in debug mode."""
    if debug:
        logging.getLogger(LOGGER_NAME).setLevel(logging.DEBUG)
