"""Lenient structured-response parser.

Generative responses are not guaranteed to be clean JSON: they arrive wrapped
in code fences, prefixed with prose, or with the odd missing comma. Parsing
proceeds in fixed steps and either yields a fully validated result or raises
AnnotationParseError; there is no partial result.

1. strip markdown code fences
2. strict json.loads on the remaining text
   (only kept when it yields the expected container type)
3. json.loads on the outermost bracket span (first ``[`` .. last ``]``,
   or first ``{`` .. last ``}`` for objects)
4. repair missing commas / trailing commas on that span and parse again
5. check the shape (array of the expected length, or an object)
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from inboxq.annotation.models import Annotation, Item, PipelineOptions
from inboxq.observability.logging import get_logger
from inboxq.observability.telemetry import counter

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*")
_BRACKETS = {"[": "]", "{": "}"}


class AnnotationParseError(ValueError):
    """The model response could not be interpreted as the expected structure."""


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence markers, keeping what they wrapped."""
    return _FENCE_RE.sub("", text).strip()


def _repair(json_text: str) -> str:
    """Insert commas the model forgot and drop trailing ones."""
    repaired = re.sub(r'"\s*\n\s*"', '",\n"', json_text)
    repaired = re.sub(r"(\d+\.?\d*|true|false|null)\s*\n\s*\"", r'\1,\n"', repaired)
    repaired = re.sub(r"\}\s*\n\s*([\"{])", r"},\n\1", repaired)
    repaired = re.sub(r'\]\s*\n\s*"', '],\n"', repaired)
    return re.sub(r",\s*([\}\]])", r"\1", repaired)


def _extract_json(text: str, opener: str) -> Any:
    """Locate and decode the outermost ``opener`` span in ``text``."""
    closer = _BRACKETS[opener]
    if not text or not text.strip():
        raise AnnotationParseError("empty response")

    cleaned = strip_code_fences(text)
    expected = list if opener == "[" else dict

    # A valid document of the wrong type (e.g. an object wrapping the array)
    # falls through to the span search
    try:
        value = json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    else:
        if isinstance(value, expected):
            return value

    start = cleaned.find(opener)
    end = cleaned.rfind(closer)
    if start == -1 or end <= start:
        counter("parser.no_span")
        raise AnnotationParseError(f"no {opener}...{closer} span found in response")

    span = cleaned[start : end + 1]
    try:
        return json.loads(span)
    except json.JSONDecodeError as e:
        logger.warning("JSON parse error (attempting repair): %s", e)

    try:
        result = json.loads(_repair(span))
    except json.JSONDecodeError as e:
        counter("parser.repair_failed")
        raise AnnotationParseError(f"invalid JSON after repair: {e}") from e

    counter("parser.repaired")
    logger.info("JSON repair succeeded")
    return result


def extract_json_array(text: str) -> list[Any]:
    """Return the JSON array embedded in ``text``."""
    value = _extract_json(text, "[")
    if not isinstance(value, list):
        raise AnnotationParseError(f"expected a JSON array, got {type(value).__name__}")
    return value


def extract_json_object(text: str) -> dict[str, Any]:
    """Return the JSON object embedded in ``text``."""
    value = _extract_json(text, "{")
    if not isinstance(value, dict):
        raise AnnotationParseError(f"expected a JSON object, got {type(value).__name__}")
    return value


def _align(raw: list[Any], batch: Sequence[Item]) -> list[Any]:
    """Order elements by item id when the model echoed every id, else keep position."""
    batch_ids = [item.id for item in batch]
    echoed = [el.get("id") if isinstance(el, dict) else None for el in raw]
    if all(isinstance(i, str) for i in echoed) and sorted(echoed) == sorted(batch_ids):
        by_id = {el["id"]: el for el in raw}
        if len(by_id) == len(batch_ids):
            return [by_id[item_id] for item_id in batch_ids]
    return raw


def _normalize_category(value: Any, options: PipelineOptions) -> str:
    if isinstance(value, str):
        lowered = value.strip().lower()
        for category in options.categories:
            if category.lower() == lowered:
                return category
    counter("parser.category_defaulted")
    return options.default_category


def parse_annotations(
    text: str, batch: Sequence[Item], options: PipelineOptions
) -> list[Annotation]:
    """Parse a batch response into annotations index-aligned with ``batch``.

    Raises:
        AnnotationParseError: On any failure; nothing is returned partially.
    """
    raw = extract_json_array(text)
    if len(raw) != len(batch):
        raise AnnotationParseError(f"expected {len(batch)} annotations, got {len(raw)}")

    annotations: list[Annotation] = []
    for position, element in enumerate(_align(raw, batch)):
        if not isinstance(element, dict):
            raise AnnotationParseError(f"element {position} is not an object")
        payload = {
            **element,
            "category": _normalize_category(element.get("category"), options),
        }
        try:
            annotation = Annotation.model_validate(payload)
        except ValidationError as e:
            raise AnnotationParseError(f"element {position} failed validation: {e}") from e

        if len(annotation.summary) > options.summary_max_chars:
            annotation.summary = annotation.summary[: options.summary_max_chars].rstrip()
        annotations.append(annotation)

    return annotations
