import logging
import logging.config
from logging.handlers import RotatingFileHandler
from pathlib import Path

def setup_logger(log_file: str = "logs/engine.log", level: int = logging.INFO,
                 max_bytes: int = 10_000_000, backup_count: int = 5):
    """Корневой логгер с ротацией файла"""
    Path(log_file).parent.mkdir(exist_ok=True, parents=True)
    logger = logging.getLogger()
    logger.setLevel(level)
    handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(name)s: %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger

def configure_logging(engine_config, debug: bool = False):
    """Применить конфигурацию логирования из EngineConfig"""
    logging.config.dictConfig(engine_config.get_logging_config())
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
    return logging.getLogger()
