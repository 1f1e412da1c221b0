import pytest

from voice_support.agents.intent_detector import (
    INTENT_PATTERNS,
    INTENT_TO_AGENT,
    IntentDetector,
    _compile,
)
from voice_support.models.conversation import ConversationEntry, MessageRole


@pytest.fixture
def detector():
    return IntentDetector()


def test_order_lookup_with_order_id(detector):
    """Test that an order status question is routed with its order id"""
    result = detector.detect("mera order 123456 kaha hai")

    assert result.intent == "ORDER_LOOKUP"
    assert result.confidence == 0.85
    assert result.entities == {"order_id": "123456"}
    assert result.requires_agent is True
    assert result.agent_type == "OrderLookupAgent"
    assert result.original_text == "mera order 123456 kaha hai"


@pytest.mark.parametrize(
    "utterance,intent",
    [
        ("mera order kaha hai", "ORDER_LOOKUP"),
        ("yeh product return karna hai", "RETURN_REQUEST"),
        ("mujhe refund chahiye", "REFUND"),
        ("order cancel karna hai", "CANCEL_ORDER"),
        ("tracking number bhejo", "TRACKING"),
        ("yeh product available hai kya", "PRODUCT_INQUIRY"),
        ("payment fail ho gaya", "PAYMENT_ISSUE"),
        ("address change karna hai", "ADDRESS_CHANGE"),
        ("mujhe complaint karni hai", "COMPLAINT"),
        ("mujhe exchange chahiye", "EXCHANGE"),
        ("cash on delivery hai kya", "COD_ISSUE"),
        ("invoice bhej do", "INVOICE"),
        ("naya account banao", "REGISTRATION"),
        ("app crash ho raha", "TECHNICAL_SUPPORT"),
    ],
)
def test_business_intents_map_to_agents(detector, utterance, intent):
    result = detector.detect(utterance)

    assert result.intent == intent
    assert result.requires_agent is True
    assert result.agent_type == INTENT_TO_AGENT[intent]


def test_first_matching_intent_wins(detector):
    """Test that an utterance matching two intents resolves to the earlier one"""
    assert detector.detect("mera order return karna hai").intent == "ORDER_LOOKUP"
    assert detector.detect("refund ka tracking batao").intent == "REFUND"


def test_cancel_action_is_checked_first(detector):
    result = detector.detect("rehne do")

    assert result.intent == "CANCEL_ACTION"
    assert result.confidence == 0.95
    assert result.should_cancel_agent is True
    assert result.requires_agent is False
    assert result.entities == {}


def test_cancel_action_ignores_history(detector):
    history = [
        {"role": "assistant", "content": "Ji sir, apna order number batayiye please"},
        {"role": "user", "content": "mera order 5001 hai"},
    ]

    result = detector.detect("rehne do", history)

    assert result.intent == "CANCEL_ACTION"
    assert result.should_cancel_agent is True


def test_cancel_beats_greeting_when_both_match():
    """Test that an utterance matching both cancel and greeting patterns cancels"""
    patterns = dict(INTENT_PATTERNS, GREETING=_compile([r"^ji"]))
    detector = IntentDetector(intent_patterns=patterns)

    result = detector.detect("ji rehne do")

    assert result.intent == "CANCEL_ACTION"
    assert result.should_cancel_agent is True


def test_cancel_phrase_inside_business_request(detector):
    """Test that "nahi chahiye" cancels even though CANCEL_ORDER also lists it"""
    assert detector.detect("yeh order nahi chahiye").intent == "CANCEL_ACTION"


def test_short_greeting(detector):
    result = detector.detect("  Namaste ")

    assert result.intent == "GREETING"
    assert result.confidence == 0.9
    assert result.requires_agent is False


def test_long_utterance_is_not_a_greeting():
    patterns = dict(INTENT_PATTERNS, GREETING=_compile([r"^hello"]))
    detector = IntentDetector(intent_patterns=patterns)

    result = detector.detect("hello mujhe ek cheez poochni thi")

    assert result.intent == "CHAT"


def test_unmatched_utterance_is_chat(detector):
    result = detector.detect("aaj mausam accha hai")

    assert result.intent == "CHAT"
    assert result.confidence == 0.7
    assert result.requires_agent is False
    assert result.agent_type is None
    assert result.entities == {}


def test_bare_number_is_chat_with_order_id(detector):
    result = detector.detect("5001")

    assert result.intent == "CHAT"
    assert result.entities == {"order_id": "5001"}


def test_extract_entities(detector):
    assert detector.extract_entities("mera mobile 9876543210 hai")["phone"] == "9876543210"
    assert detector.extract_entities("email test.user@example.com hai")["email"] == "test.user@example.com"
    assert detector.extract_entities("₹ 500 wapas chahiye")["amount"] == "500"
    assert detector.extract_entities("rs 250 kat gaye")["amount"] == "250"
    assert detector.extract_entities("pin 411001 hai")["pin_code"] == "411001"


def test_order_id_prefers_number_after_order(detector):
    entities = detector.extract_entities("2 din pehle order kiya tha 77889")

    assert entities["order_id"] == "77889"


def test_intent_to_agent():
    assert IntentDetector.intent_to_agent("REFUND") == "RefundAgent"
    assert IntentDetector.intent_to_agent("COD_ISSUE") == "CODAgent"
    assert IntentDetector.intent_to_agent("CHAT") is None


def test_is_waiting_for_entity(detector):
    expectation = detector.is_waiting_for_entity([
        {"role": "user", "content": "mera order kahan hai"},
        {"role": "assistant", "content": "Ji sir, apna order number batayiye please"},
    ])

    assert expectation.entity == "order_id"
    assert expectation.context == "ORDER_LOOKUP"


def test_is_waiting_for_entity_phone_and_pin(detector):
    phone = detector.is_waiting_for_entity([
        ConversationEntry(role=MessageRole.ASSISTANT, content="Aapka mobile number batayiye"),
    ])
    pin = detector.is_waiting_for_entity([
        ConversationEntry(role=MessageRole.ASSISTANT, content="Pin code batayiye please"),
    ])

    assert phone.entity == "phone"
    assert pin.entity == "pin_code"


def test_is_waiting_for_entity_ignores_user_and_old_messages(detector):
    assert detector.is_waiting_for_entity([
        {"role": "user", "content": "order number 5001"},
    ]) is None

    history = [
        {"role": "assistant", "content": "Ji sir, apna order number batayiye please"},
        {"role": "user", "content": "ek minute"},
        {"role": "user", "content": "dhoondh raha hoon"},
        {"role": "user", "content": "haan"},
    ]
    assert detector.is_waiting_for_entity(history) is None
    assert detector.is_waiting_for_entity([]) is None
