import unittest

from pydantic import ValidationError

from voice_support.models.telephony_schemas import (
    DtmfMessage,
    MediaMessage,
    OutgoingMediaMessage,
    OutgoingMediaPayload,
    StartMessage,
    StopMessage,
)


class TestTelephonySchemas(unittest.TestCase):

    def test_start_message_aliases(self):
        message = StartMessage(
            event="start",
            start={"call_sid": "CA123", "from": "+919876543210", "to": "+918000000000"},
        )

        self.assertEqual(message.start.from_number, "+919876543210")
        self.assertEqual(message.start.to_number, "+918000000000")
        self.assertEqual(message.start.media_format.encoding, "base64")
        self.assertEqual(message.start.custom_parameters, {})

    def test_start_requires_call_sid(self):
        with self.assertRaises(ValidationError):
            StartMessage(event="start", start={"call_sid": " "})
        with self.assertRaises(ValidationError):
            StartMessage(event="start", start={})

    def test_wrong_event_literal(self):
        with self.assertRaises(ValidationError):
            MediaMessage(event="start", media={"payload": "AAE="})

    def test_media_payload_must_be_base64(self):
        self.assertEqual(
            MediaMessage(event="media", media={"payload": "AAE="}).media.payload, "AAE="
        )
        with self.assertRaises(ValidationError):
            MediaMessage(event="media", media={"payload": "@@@"})
        with self.assertRaises(ValidationError):
            MediaMessage(event="media", media={"payload": ""})

    def test_dtmf_digits(self):
        for digit in "0123456789*#ABCD":
            self.assertEqual(DtmfMessage(event="dtmf", dtmf={"digit": digit}).dtmf.digit, digit)
        for digit in ("", "12", "x"):
            with self.assertRaises(ValidationError):
                DtmfMessage(event="dtmf", dtmf={"digit": digit})

    def test_stop_payload_is_optional(self):
        message = StopMessage(event="stop")

        self.assertIsNone(message.stop.reason)

    def test_outgoing_media(self):
        message = OutgoingMediaMessage(
            stream_sid="MZ123", media=OutgoingMediaPayload(payload="AAE=")
        )

        self.assertEqual(
            message.model_dump(exclude_none=True),
            {"event": "media", "stream_sid": "MZ123", "media": {"payload": "AAE="}},
        )


if __name__ == "__main__":
    unittest.main()
