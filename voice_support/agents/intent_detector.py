"""
Intent detection and entity extraction for caller utterances.

Classification is rule based: ordered regular-expression tables for
Hindi/Hinglish phrasings. Cancellation is checked first, then short
greetings, then the business intents in a fixed order, so the first
business intent whose patterns match wins.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from voice_support.config.constants import LOGGER_NAME
from voice_support.models.intent import EntityExpectation, IntentResult

logger = logging.getLogger(LOGGER_NAME)

GREETING_MAX_LENGTH = 20
RECENT_CONTEXT_MESSAGES = 3


def _compile(patterns: Iterable[str], flags: int = re.IGNORECASE) -> List[re.Pattern]:
    return [re.compile(p, flags) for p in patterns]


INTENT_PATTERNS: Dict[str, List[re.Pattern]] = {
    "ORDER_LOOKUP": _compile([
        r"order.*status",
        r"order.*kaha.*hai",
        r"order.*check",
        r"order.*track",
        r"mera.*order",
        r"delivery.*kab",
        r"shipment",
    ]),
    "RETURN_REQUEST": _compile([
        r"return.*karna.*hai",
        r"return.*chahiye",
        r"wapas.*bhej",
        r"product.*wapas",
        r"galat.*product",
        r"defective",
        r"damaged",
    ]),
    "REFUND": _compile([
        r"refund",
        r"paisa.*wapas",
        r"money.*back",
        r"payment.*return",
        r"amount.*wapas",
    ]),
    "CANCEL_ORDER": _compile([
        r"cancel.*karna",
        r"cancel.*kar.*do",
        r"order.*cancel",
        r"nahi.*chahiye",
        r"mat.*bhejo",
    ]),
    "TRACKING": _compile([
        r"tracking",
        r"track.*karo",
        r"location.*kya.*hai",
        r"kahan.*pahunch",
        r"delivery.*boy",
    ]),
    "PRODUCT_INQUIRY": _compile([
        r"product.*available",
        r"stock.*hai",
        r"product.*detail",
        r"specifications",
        r"price.*kya.*hai",
    ]),
    "PAYMENT_ISSUE": _compile([
        r"payment.*fail",
        r"payment.*nahi.*hua",
        r"paisa.*cut.*gaya",
        r"transaction.*fail",
        r"debit.*ho.*gaya",
    ]),
    "ADDRESS_CHANGE": _compile([
        r"address.*change",
        r"address.*update",
        r"location.*change",
        r"delivery.*address",
    ]),
    "COMPLAINT": _compile([
        r"complaint",
        r"shikayat",
        r"problem.*hai",
        r"issue.*hai",
        r"bahut.*bura",
        r"not.*satisfied",
    ]),
    "EXCHANGE": _compile([
        r"exchange",
        r"size.*change",
        r"color.*change",
        r"different.*size",
        r"badal.*do",
    ]),
    "COD_ISSUE": _compile([
        r"cod",
        r"cash.*delivery",
        r"pay.*kaise",
        r"payment.*method",
    ]),
    "INVOICE": _compile([
        r"invoice",
        r"bill",
        r"receipt",
        r"gst",
    ]),
    "REGISTRATION": _compile([
        r"register",
        r"sign.*up",
        r"account.*banao",
        r"new.*account",
    ]),
    "TECHNICAL_SUPPORT": _compile([
        r"app.*nahi.*chal",
        r"website.*error",
        r"login.*nahi.*ho",
        r"technical.*problem",
        r"app.*crash",
    ]),
    "GREETING": _compile([
        r"^hello$",
        r"^hi$",
        r"^namaste$",
        r"^haan$",
        r"^ji$",
        r"^yes$",
    ]),
    "CANCEL_ACTION": _compile([
        r"rehne.*do",
        r"cancel.*karo",
        r"nahi.*chahiye",
        r"mat.*karo",
        r"chodo",
        r"forget.*it",
    ]),
}

# Order matters: the first matching pattern per entity wins
ENTITY_PATTERNS: Dict[str, List[re.Pattern]] = {
    "order_id": [
        re.compile(r"order.*?(\d{4,10})", re.IGNORECASE),
        re.compile(r"\b(\d{4,10})\b"),
        re.compile(r"number.*?(\d{4,10})", re.IGNORECASE),
    ],
    "phone": [
        re.compile(r"(\+?\d{10,12})"),
        re.compile(r"phone.*?(\d{10})", re.IGNORECASE),
        re.compile(r"mobile.*?(\d{10})", re.IGNORECASE),
    ],
    "email": [
        re.compile(r"([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})"),
    ],
    "amount": [
        re.compile(r"₹\s*(\d+)"),
        re.compile(r"rupees?\s*(\d+)", re.IGNORECASE),
        re.compile(r"rs\.?\s*(\d+)", re.IGNORECASE),
    ],
    "pin_code": [
        re.compile(r"pin.*?(\d{6})", re.IGNORECASE),
        re.compile(r"pincode.*?(\d{6})", re.IGNORECASE),
        re.compile(r"postal.*?(\d{6})", re.IGNORECASE),
    ],
}

BUSINESS_INTENTS = (
    "ORDER_LOOKUP",
    "RETURN_REQUEST",
    "REFUND",
    "CANCEL_ORDER",
    "TRACKING",
    "PRODUCT_INQUIRY",
    "PAYMENT_ISSUE",
    "ADDRESS_CHANGE",
    "COMPLAINT",
    "EXCHANGE",
    "COD_ISSUE",
    "INVOICE",
    "REGISTRATION",
    "TECHNICAL_SUPPORT",
)

INTENT_TO_AGENT = {
    "ORDER_LOOKUP": "OrderLookupAgent",
    "RETURN_REQUEST": "ReturnAgent",
    "REFUND": "RefundAgent",
    "CANCEL_ORDER": "CancelOrderAgent",
    "TRACKING": "TrackingAgent",
    "PRODUCT_INQUIRY": "ProductInquiryAgent",
    "PAYMENT_ISSUE": "PaymentIssueAgent",
    "ADDRESS_CHANGE": "AddressChangeAgent",
    "COMPLAINT": "ComplaintAgent",
    "EXCHANGE": "ExchangeAgent",
    "COD_ISSUE": "CODAgent",
    "INVOICE": "InvoiceAgent",
    "REGISTRATION": "RegistrationAgent",
    "TECHNICAL_SUPPORT": "TechnicalSupportAgent",
}


def _message_field(message: Any, name: str) -> Any:
    """Read ``role``/``content`` from a ConversationEntry or a plain dict."""
    if isinstance(message, dict):
        return message.get(name)
    return getattr(message, name, None)


class IntentDetector:
    """Rule-based intent classifier and entity extractor."""

    def __init__(
        self,
        intent_patterns: Optional[Dict[str, List[re.Pattern]]] = None,
        entity_patterns: Optional[Dict[str, List[re.Pattern]]] = None,
    ):
        self.intent_patterns = intent_patterns or INTENT_PATTERNS
        self.entity_patterns = entity_patterns or ENTITY_PATTERNS

    def detect(self, transcript: str, context: Optional[List[Any]] = None) -> IntentResult:
        """
        Classify one utterance.

        Args:
            transcript: The caller's transcribed speech
            context: Recent conversation entries (unused by the rules today)

        Returns:
            IntentResult for the utterance, ``CHAT`` when nothing matched
        """
        text = transcript.lower().strip()
        logger.debug(f"Detecting intent for: {text}")

        if self.matches_intent(text, "CANCEL_ACTION"):
            return IntentResult(
                intent="CANCEL_ACTION",
                confidence=0.95,
                entities={},
                should_cancel_agent=True,
            )

        if self.matches_intent(text, "GREETING") and len(text) < GREETING_MAX_LENGTH:
            return IntentResult(intent="GREETING", confidence=0.9, entities={})

        for intent in BUSINESS_INTENTS:
            if self.matches_intent(text, intent):
                return IntentResult(
                    intent=intent,
                    confidence=0.85,
                    entities=self.extract_entities(text),
                    requires_agent=True,
                    agent_type=self.intent_to_agent(intent),
                    original_text=transcript,
                )

        return IntentResult(
            intent="CHAT",
            confidence=0.7,
            entities=self.extract_entities(text),
            original_text=transcript,
        )

    def matches_intent(self, text: str, intent: str) -> bool:
        return any(p.search(text) for p in self.intent_patterns.get(intent, []))

    def extract_entities(self, text: str) -> Dict[str, str]:
        entities: Dict[str, str] = {}
        for entity, patterns in self.entity_patterns.items():
            for pattern in patterns:
                match = pattern.search(text)
                if match:
                    captured = match.group(1) if pattern.groups else None
                    entities[entity] = captured or match.group(0)
                    break
        return entities

    @staticmethod
    def intent_to_agent(intent: str) -> Optional[str]:
        return INTENT_TO_AGENT.get(intent)

    def is_waiting_for_entity(self, context: List[Any]) -> Optional[EntityExpectation]:
        """
        Infer which entity the assistant just asked for.

        Only the last few assistant messages are inspected.
        """
        for message in list(context or [])[-RECENT_CONTEXT_MESSAGES:]:
            if _message_field(message, "role") != "assistant":
                continue
            text = str(_message_field(message, "content") or "").lower()
            if "order" in text and "number" in text:
                return EntityExpectation(entity="order_id", context="ORDER_LOOKUP")
            if "phone" in text or "mobile" in text:
                return EntityExpectation(entity="phone", context="VERIFICATION")
            if "pin" in text or "pincode" in text:
                return EntityExpectation(entity="pin_code", context="ADDRESS")
        return None
