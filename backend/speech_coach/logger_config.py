import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level_name: str = "INFO", name: str = "speech_coach") -> logging.Logger:
	logger = logging.getLogger(name)
	logger.setLevel(getattr(logging, (level_name or "INFO").upper(), logging.INFO))

	if not logger.handlers:
		handler = logging.StreamHandler()
		handler.setFormatter(logging.Formatter(LOG_FORMAT))
		logger.addHandler(handler)

	return logger
