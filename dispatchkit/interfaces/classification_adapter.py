"""ClassificationAdapter protocol - turns free text into domain triples."""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ClassificationAdapter(Protocol):
    """Classifies a free-text query.

    Returns a mapping in the classification input shape::

        {"query": str, "domain_tags": [str], "sub_topics": [str],
         "keywords": [str], "constraints": {str: str}, "context": str | None}
    """

    async def classify(self, text: str) -> dict[str, Any]:
        ...
