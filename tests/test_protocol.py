"""Tests for command builders and reply classification."""

import pytest

from rtls_link.errors import InvalidResponseError
from rtls_link.protocol import commands
from rtls_link.protocol.response import (find_json_start, is_error_response,
                                         parse_json_response, parse_readall_response)


class TestCommandBuilders:

    def test_read_all(self):
        assert commands.read_all() == "readall all"
        assert commands.read_all("wifi") == "readall wifi"

    def test_read_param(self):
        assert commands.read_param("wifi", "ssidST") == "read -group wifi -name ssidST"

    def test_write_param(self):
        assert commands.write_param("wifi", "ssidST", "My Net") == \
            'write -group wifi -name ssidST -data "My Net"'

    def test_write_param_escapes_quote_once(self):
        cmd = commands.write_param("wifi", "pswdST", 'pass"word')
        assert cmd == 'write -group wifi -name pswdST -data "pass\\"word"'

    def test_write_param_escapes_backslash(self):
        cmd = commands.write_param("wifi", "pswdST", "pass\\word")
        assert cmd == 'write -group wifi -name pswdST -data "pass\\\\word"'

    def test_named_config_commands(self):
        assert commands.save_config_as("lab") == "save-config-as -name lab"
        assert commands.delete_config("lab") == "delete-config -name lab"

    def test_json_command_table(self):
        assert commands.is_json_command("backup-config")
        assert commands.is_json_command("save-config-as -name test")
        assert commands.is_json_command("firmware-info")
        assert not commands.is_json_command("save-config")
        assert not commands.is_json_command("version")
        assert not commands.is_json_command("reboot")


class TestErrorClassification:

    def test_ok_is_success(self):
        assert is_error_response("OK") is None

    def test_error_prefix_message(self):
        assert is_error_response("Error: invalid group") == "invalid group"

    def test_error_marker_any_case(self):
        assert is_error_response("write ERROR:  bad value ") == "bad value"

    def test_error_marker_after_case_expanding_text(self):
        # "İ" lowercases to two code points
        assert is_error_response("İİİ Error: slot busy") == "slot busy"

    def test_keyword_heuristic(self):
        assert is_error_response("Failed to write parameter") == "Failed to write parameter"
        assert is_error_response("  Not found  ") == "Not found"

    def test_success_suppresses_keywords(self):
        assert is_error_response("OK - success") is None
        assert is_error_response("No failures, success") is None

    def test_json_success_false(self):
        assert is_error_response('{"success": false, "message": "Invalid param"}') == "Invalid param"
        assert is_error_response('{"success": false, "error": "busy"}') == "busy"
        assert is_error_response('{"success": false}') == "Command failed"
        assert is_error_response('{"success": false, "message": 7}') == "Unknown error"

    def test_json_error_key(self):
        assert is_error_response('{"error": "no slot", "success": null}') == "no slot"
        assert is_error_response('{"error": 3, "success": null}') == "Unknown error"

    def test_keyword_rule_runs_before_json(self):
        assert is_error_response('{"error": "no slot"}') == '{"error": "no slot"}'

    def test_json_success_true(self):
        assert is_error_response('{"success": true}') is None
        assert is_error_response('OK\n{"success": true, "value": 42}') is None

    def test_json_array_is_success(self):
        assert is_error_response('[{"name": "a"}]') is None


class TestJsonExtraction:

    def test_find_json_start(self):
        assert find_json_start("OK\n{}") == 3
        assert find_json_start("x [1] {") == 2
        assert find_json_start("plain") is None

    def test_prefixed_object(self):
        assert parse_json_response('OK\n{"success":true,"value":42}', "10.0.0.1") == \
            {"success": True, "value": 42}

    def test_prefixed_array(self):
        assert parse_json_response('OK\n[{"success": true}]', "10.0.0.1") == [{"success": True}]

    def test_no_json(self):
        with pytest.raises(InvalidResponseError, match="No JSON found"):
            parse_json_response("OK - done", "10.0.0.1")

    def test_broken_json(self):
        with pytest.raises(InvalidResponseError, match="Failed to parse JSON"):
            parse_json_response('OK {"a": ', "10.0.0.1")


class TestReadallParsing:

    def test_groups_and_values(self):
        text = "\n[wifi]\nmode=1\nssidST=TestNetwork\n\n[uwb]\nmode=4\ndevShortAddr=1\n"
        params = parse_readall_response(text)
        assert params == [
            ("wifi", "mode", "1"),
            ("wifi", "ssidST", "TestNetwork"),
            ("uwb", "mode", "4"),
            ("uwb", "devShortAddr", "1"),
        ]

    def test_lines_before_first_group_ignored(self):
        assert parse_readall_response("orphan=1\n[app]\nled2Pin = 2") == [("app", "led2Pin", "2")]

    def test_value_may_contain_equals(self):
        assert parse_readall_response("[wifi]\npswdST=a=b") == [("wifi", "pswdST", "a=b")]
