import io
import logging

from conftest import ABANDON
from provisioner import keys
from provisioner.logging_config import RedactSecrets, logging_config, redact


def test_mnemonic_is_masked():
    assert redact(f"derived from {ABANDON} ok") == "derived from [mnemonic redacted] ok"


def test_mnemonic_inside_longer_sentence_is_masked():
    mnemonic, _ = keys.new_wallet()
    text = redact(f"the phrase is {mnemonic}, keep it safe")
    assert mnemonic not in text
    assert "[mnemonic redacted]" in text


def test_short_word_runs_are_left_alone():
    text = "group 1 batch 2 failed: outcome unknown while checking ledger"
    assert redact(text) == text


def test_keys_are_masked_and_addresses_kept():
    signer = keys.derive(ABANDON)
    exported = signer.export()
    text = redact(f"{exported['address']} {exported['public_key']} {exported['private_key']}")
    assert text == f"{signer.address} [key redacted] [key redacted]"


def _capture():
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RedactSecrets())
    log = logging.getLogger("provisioner.test_redaction")
    log.addHandler(handler)
    log.propagate = False
    log.setLevel(logging.DEBUG)
    return log, handler, stream


def test_filter_masks_formatted_args_and_tracebacks():
    log, handler, stream = _capture()
    private_key = keys.derive(ABANDON).export()["private_key"]
    try:
        log.info("login %s", ABANDON)
        try:
            raise ValueError(f"bad key {private_key}")
        except ValueError:
            log.exception("signing failed")
    finally:
        log.removeHandler(handler)

    out = stream.getvalue()
    assert ABANDON not in out
    assert private_key not in out
    assert "login [mnemonic redacted]" in out
    assert "[key redacted]" in out


def test_file_handler_only_when_configured(tmp_path):
    assert set(logging_config(log_file=None)["handlers"]) == {"console"}
    config = logging_config(log_file=str(tmp_path / "p.log"))
    assert set(config["handlers"]) == {"console", "file"}
    assert all(h["filters"] == ["redact"] for h in config["handlers"].values())
