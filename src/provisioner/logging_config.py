import logging
import logging.config
import os
import re
import sys

from mnemonic import Mnemonic

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE")  # console only unless set

# ed25519 keys as xrpl-py renders them. Public and private keys share the
# shape, so both are masked; log addresses instead.
_ED_KEY = re.compile(r"\bED[0-9A-F]{64}\b", re.IGNORECASE)
# Runs of lowercase words; any 12 or more consecutive BIP-39 words inside a
# run are masked.
_WORD_RUN = re.compile(r"\b[a-z]+\b(?:\s+\b[a-z]+\b)*")
_WORD = re.compile(r"\b[a-z]+\b")
_WORDS = frozenset(Mnemonic("english").wordlist)
MIN_PHRASE_WORDS = 12


def _mask_phrases(run: re.Match) -> str:
    text = run.group(0)
    words = list(_WORD.finditer(text))
    pieces, last, i = [], 0, 0
    while i < len(words):
        j = i
        while j < len(words) and words[j].group(0) in _WORDS:
            j += 1
        if j - i >= MIN_PHRASE_WORDS:
            pieces.append(text[last:words[i].start()])
            pieces.append("[mnemonic redacted]")
            last = words[j - 1].end()
        i = max(j, i + 1)
    pieces.append(text[last:])
    return "".join(pieces)


def redact(text: str) -> str:
    return _WORD_RUN.sub(_mask_phrases, _ED_KEY.sub("[key redacted]", text))


class RedactSecrets(logging.Filter):
    """Mask mnemonics and key material in the rendered message and traceback."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        clean = redact(message)
        if clean != message:
            record.msg, record.args = clean, None
        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = redact(record.exc_text)
        return True


def logging_config(level: str = LOG_LEVEL, log_file: str | None = LOG_FILE) -> dict:
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "filters": ["redact"],
            "stream": sys.stdout,
        },
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "formatter": "default",
            "filters": ["redact"],
            "filename": log_file,
            "mode": "a",
        }
    names = list(handlers)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "redact": {"()": RedactSecrets},
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)-6s %(name)s:%(lineno)d %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": {
            "provisioner": {"level": level, "handlers": names, "propagate": False},
            # Request lines carry public keys in the path.
            "uvicorn.access": {"level": "WARNING", "handlers": names, "propagate": False},
            "xrpl": {"level": "WARNING", "handlers": names, "propagate": False},
        },
        "root": {"level": "WARNING", "handlers": names},
    }


def setup_logging():
    """ Apply the logging configuration. """
    logging.config.dictConfig(logging_config())
    os.environ.setdefault("PYTHONUNBUFFERED", "1")
