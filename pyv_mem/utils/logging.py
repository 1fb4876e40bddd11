import logging
def get_logger(name:str="pyv-mem", level:str|None=None):
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level.upper())
    return logger
