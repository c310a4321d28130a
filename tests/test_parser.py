import pytest

from ftplink import (
    PassiveModeParseError,
    ResponseParseError,
    codes,
    parse_feat,
    parse_pasv,
    parse_pwd,
    status_code,
)


class TestStatusCode:
    def test_single_line(self):
        assert status_code("230 User logged in") == 230

    def test_multi_line_uses_final_line(self):
        raw = "211-Features:\r\n MLST type*;size*;\r\n UTF8\r\n211 End"
        assert status_code(raw) == 211

    @pytest.mark.parametrize(
        "prefix",
        ["", "150-Opening\n", "211-Status\n 150 looks like a code\n", "200-a\n200-b\n"],
    )
    def test_continuation_lines_never_change_the_code(self, prefix):
        assert status_code(prefix + "226 Transfer complete") == 226

    def test_trailing_blank_lines_are_ignored(self):
        assert status_code("257 \"/\" is current directory\r\n\r\n") == 257

    def test_bare_code(self):
        assert status_code("200") == 200

    @pytest.mark.parametrize("raw", ["", "\r\n", "OK", "2x0 hmm", "22"])
    def test_missing_code_raises(self, raw):
        with pytest.raises(ResponseParseError):
            status_code(raw)

    def test_parse_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            status_code("garbage")


class TestParseFeat:
    def test_multi_line_features(self):
        raw = "211-Features:\r\n MLST type*;size*;modify*;\r\n UTF8\r\n SIZE\r\n211 End"
        capabilities = parse_feat(raw)

        assert capabilities.mlst
        assert capabilities.utf8
        assert "SIZE" in capabilities.features
        assert "MLST type*;size*;modify*;" in capabilities.features

    def test_framing_lines_are_not_features(self):
        capabilities = parse_feat("211-Features:\n UTF8\n211 End")
        assert capabilities.features == frozenset({"UTF8"})

    def test_single_line_reply(self):
        capabilities = parse_feat("211 MLST UTF8")
        assert capabilities.mlst
        assert capabilities.utf8

    def test_each_feature_detected_independently(self):
        capabilities = parse_feat("211-Features:\n UTF8\n211 End")
        assert capabilities.utf8
        assert not capabilities.mlst

    def test_unknown_features_are_ignored(self):
        capabilities = parse_feat("211-Features:\n REST STREAM\n XCRC\n211 End")
        assert not capabilities.mlst
        assert not capabilities.utf8
        assert capabilities.features == frozenset({"REST STREAM", "XCRC"})


class TestParsePasv:
    def test_standard_reply(self):
        endpoint = parse_pasv("227 Entering Passive Mode (192,168,1,2,19,137).")
        assert endpoint.host == "192.168.1.2"
        assert endpoint.port == 19 * 256 + 137

    def test_reply_without_parentheses(self):
        endpoint = parse_pasv("227 Entering Passive Mode 10,0,0,5,4,1")
        assert endpoint.octets == (10, 0, 0, 5)
        assert endpoint.port == 1025

    def test_spaces_between_numbers(self):
        endpoint = parse_pasv("227 =127, 0, 0, 1, 200, 10")
        assert endpoint.host == "127.0.0.1"
        assert endpoint.port == 51210

    @pytest.mark.parametrize("p1,p2", [(0, 0), (0, 255), (255, 255), (117, 48)])
    def test_port_is_high_byte_times_256_plus_low_byte(self, p1, p2):
        endpoint = parse_pasv(f"227 Entering Passive Mode (1,2,3,4,{p1},{p2})")
        assert endpoint.port == p1 * 256 + p2

    @pytest.mark.parametrize(
        "raw",
        [
            "227 Entering Passive Mode",
            "227 Entering Passive Mode (192,168,1,2,19)",
            "227 Entering Passive Mode (192,168,1,300,19,137)",
            "227 Entering Passive Mode (192,168,1,2,19,256)",
        ],
    )
    def test_malformed_reply_raises(self, raw):
        with pytest.raises(PassiveModeParseError):
            parse_pasv(raw)

    def test_passive_errors_are_response_errors(self):
        with pytest.raises(ResponseParseError):
            parse_pasv("227 nope")


class TestParsePwd:
    def test_quoted_path(self):
        assert parse_pwd('257 "/home/bob" is the current directory') == "/home/bob"

    def test_doubled_quotes_are_unescaped(self):
        assert parse_pwd('257 "/tmp/say ""hi""" created') == '/tmp/say "hi"'

    def test_missing_quotes_raise(self):
        with pytest.raises(ResponseParseError):
            parse_pwd("257 /home/bob")


def test_reply_code_descriptions():
    assert codes[227] == "Entering Passive Mode"
    assert codes[550].startswith("Requested action not taken")
