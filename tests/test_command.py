"""Tests for voltronic.command."""

import pytest

from voltronic.command import CommandDescriptor
from voltronic.errors import InvalidArgumentError, ParseFailureError
from voltronic.protocol import encode_frame


def payload(frame):
    """Parser returning the reply text."""
    return frame.payload


class TestConstruction:
    """Tests for CommandDescriptor construction."""

    def test_requires_parser(self):
        """A descriptor without a parser is rejected."""
        with pytest.raises(InvalidArgumentError, match="parser"):
            CommandDescriptor("QPIGS")

    def test_rejects_non_callable_parser(self):
        """The parser must be callable."""
        with pytest.raises(InvalidArgumentError):
            CommandDescriptor("QPIGS", parser="not a function")

    def test_normalizes_name(self):
        """Names are trimmed and upper-cased."""
        assert CommandDescriptor(" qpigs\n", parser=payload).name == "QPIGS"

    def test_empty_allowed_values_mean_no_argument(self):
        """An empty collection of values counts as none."""
        descriptor = CommandDescriptor("QPI", [], parser=payload)
        assert descriptor.allowed_values is None
        assert not descriptor.takes_argument

    def test_allowed_values_stored_as_tuple(self):
        """Allowed values are frozen into a tuple."""
        descriptor = CommandDescriptor("POP{}", ["00", "01"], parser=payload)
        assert descriptor.allowed_values == ("00", "01")
        assert descriptor.takes_argument

    def test_values_without_placeholder(self):
        """A command taking a value needs a placeholder."""
        with pytest.raises(InvalidArgumentError, match="placeholder"):
            CommandDescriptor("POP", ["00"], parser=payload)

    def test_placeholder_without_values(self):
        """A placeholder without allowed values is rejected."""
        with pytest.raises(InvalidArgumentError, match="placeholder"):
            CommandDescriptor("POP{}", parser=payload)

    def test_str(self):
        """str() names the command."""
        assert str(CommandDescriptor("qmod", parser=payload)) == (
            "CommandDescriptor('QMOD')"
        )


class TestBuild:
    """Tests for CommandDescriptor.build."""

    def test_no_argument_command(self):
        """A plain command builds its own frame."""
        frame = CommandDescriptor("QPIGS", parser=payload).build()
        assert frame.wire == "5150494753B7A90D"

    def test_extra_argument_rejected(self):
        """A plain command refuses an argument."""
        descriptor = CommandDescriptor("QPIGS", parser=payload)
        with pytest.raises(InvalidArgumentError, match="1 for 0"):
            descriptor.build("01")

    def test_missing_argument_rejected(self):
        """A valued command requires its argument."""
        descriptor = CommandDescriptor("PGR{}", ["01", "02"], parser=payload)
        with pytest.raises(InvalidArgumentError, match="0 for 1"):
            descriptor.build()

    def test_value_not_allowed(self):
        """Values outside the allowed set are rejected."""
        descriptor = CommandDescriptor("PGR{}", ["01", "02"], parser=payload)
        with pytest.raises(InvalidArgumentError, match="not accepted"):
            descriptor.build("03")

    def test_allowed_value(self):
        """An allowed value is substituted into the placeholder."""
        descriptor = CommandDescriptor("PGR{}", ["01", "02"], parser=payload)
        frame = descriptor.build("01")
        assert frame.command == "PGR01"
        assert frame == encode_frame("PGR01")

    def test_corrected_crc_after_substitution(self):
        """POP02 is built with its corrected CRC."""
        descriptor = CommandDescriptor("POP{}", ["00", "01", "02"],
                                       parser=payload)
        assert descriptor.build("02").wire == "504F503032E20B0D"

    def test_render(self):
        """render returns the command text without encoding it."""
        descriptor = CommandDescriptor("POP{}", ["00", "01", "02"],
                                       parser=payload)
        assert descriptor.render("01") == "POP01"


class TestParseResult:
    """Tests for CommandDescriptor.parse_result."""

    def test_parses_reply(self):
        """A valid reply is decoded and passed to the parser."""
        descriptor = CommandDescriptor("QMOD", parser=payload)
        assert descriptor.parse_result(encode_frame("(B").wire) == "B"

    def test_parser_receives_frame(self):
        """The parser is handed the decoded ProtocolFrame."""
        seen = []
        descriptor = CommandDescriptor("QID", parser=seen.append)
        reply = encode_frame("(92932004102443")
        descriptor.parse_result(reply.wire)
        assert seen == [reply]

    def test_bad_hex_is_parse_failure(self):
        """Decoding failures surface as ParseFailureError."""
        descriptor = CommandDescriptor("QMOD", parser=payload)
        with pytest.raises(ParseFailureError) as excinfo:
            descriptor.parse_result("2842E7C80D")
        assert excinfo.value.original_kind == "InvalidInputError"
        assert "does not appear to be valid" in excinfo.value.detail

    def test_parser_error_is_parse_failure(self):
        """Parser exceptions lose their type but keep their description."""
        def broken(frame):
            raise KeyError("missing field")

        descriptor = CommandDescriptor("QMOD", parser=broken)
        with pytest.raises(ParseFailureError) as excinfo:
            descriptor.parse_result(encode_frame("(B").wire)
        assert not isinstance(excinfo.value, KeyError)
        assert excinfo.value.original_kind == "KeyError"
        assert "KeyError thrown" in str(excinfo.value)
        assert str(excinfo.value).startswith("Could not parse the result")
