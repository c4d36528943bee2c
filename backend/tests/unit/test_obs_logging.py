import json
import logging

from campus_ledger.obs import logging as obs_logging


def _record(**extra):
	record = logging.LogRecord("campus_ledger.test", logging.INFO, __file__, 1, "allocated", None, None)
	for key, value in extra.items():
		setattr(record, key, value)
	return record


def test_formatter_adds_bound_context_and_masks_credentials():
	token = obs_logging.bind_context(request_id="req-1", route="/clubs", user_id=None)
	try:
		line = json.loads(
			obs_logging.JSONLogFormatter().format(
				_record(club_id="chess", user_email="ann@campus.edu", meta={"access_token": "abc", "amount": 5})
			)
		)
		assert obs_logging.current_request_id() == "req-1"
	finally:
		obs_logging.reset_context(token)

	assert (line["msg"], line["level"], line["request_id"], line["route"]) == ("allocated", "info", "req-1", "/clubs")
	assert "user_id" not in line
	assert line["club_id"] == "chess"
	assert line["user_email"] == "[redacted]"
	assert line["meta"] == {"access_token": "[redacted]", "amount": 5}
	assert obs_logging.current_request_id() is None
