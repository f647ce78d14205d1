from __future__ import annotations

from collections.abc import Iterable

from applystorm.core.classifier import Classifier
from applystorm.core.normalizer import normalize
from applystorm.types import JobPosting

DEFAULT_MAX_LABELS = 3


def clamp_labels(labels: Iterable[object] | None, maximum: int = DEFAULT_MAX_LABELS) -> list[str]:
    """Lowercase, dedupe and cap a user's selected labels, keeping their order."""
    clamped: list[str] = []
    for raw in labels or []:
        if raw is None:
            continue
        label = str(raw).strip().lower()
        if not label or label in clamped:
            continue
        clamped.append(label)
        if len(clamped) >= maximum:
            break
    return clamped


class Matcher:
    def __init__(self, classifier: Classifier):
        self.classifier = classifier

    def matches(self, job: JobPosting, wanted: Iterable[str]) -> bool:
        # A wanted label's own rules may fire even when the cached tag names
        # another label; both paths count.
        wanted_set = {label.strip().lower() for label in wanted if label and label.strip()}
        if not wanted_set:
            return False

        tag = self.classifier.classify(job)
        if tag and tag.strip().lower() in wanted_set:
            return True

        text = normalize(job)
        taxonomy = self.classifier.taxonomy
        return any(taxonomy.label_matches(label, text) for label in wanted_set)
