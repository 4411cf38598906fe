import re

_DEFINITION_PHRASES = re.compile(r"what is|define|explain", re.IGNORECASE)
_HOW_TO_PHRASES = ("how to", "how do")


class QueryRewriter:
    """Expands a chat message into a search query by message shape"""

    def rewrite(self, message: str) -> str:
        lowered = message.lower()

        if _DEFINITION_PHRASES.search(lowered):
            topic = _DEFINITION_PHRASES.sub("", message).strip()
            return f"{topic} definition overview introduction basics"

        if any(phrase in lowered for phrase in _HOW_TO_PHRASES):
            return f"{message} guide tutorial steps instructions"

        return message
