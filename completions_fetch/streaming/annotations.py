"""
Annotation table for streamed choices.

The proxy sends annotations as `{namespace: [annotation, ...]}` and re-sends
an annotation with the same id whenever it extends it, e.g.

    {"code_references": [{"id": 0, "start_offset": 0, "stop_offset": 1, "details": {}}]}
    {"code_references": [{"id": 0, "start_offset": 0, "stop_offset": 2, "details": {}}]}

leaves one annotation with stop_offset 2. A new id starts a new annotation.
"""

from typing import Any, Mapping

from completions_fetch.models.stream import CopilotAnnotation, CopilotNamedAnnotationList


class StreamCopilotAnnotations:
    """Namespaced annotation table; updates are matched by id and replace in place."""

    def __init__(self) -> None:
        self.current: CopilotNamedAnnotationList = {}

    def update(self, annotations: Mapping[str, list[Any]]) -> None:
        """Merge a `{namespace: [annotation]}` payload."""
        for namespace, namespace_annotations in annotations.items():
            for annotation in namespace_annotations:
                self.update_namespace(namespace, annotation)

    def update_namespace(self, namespace: str, annotation: CopilotAnnotation | dict[str, Any]) -> None:
        """Replace the annotation with the same id in `namespace`, or append it."""
        if not isinstance(annotation, CopilotAnnotation):
            annotation = CopilotAnnotation.model_validate(annotation)
        existing = self.current.setdefault(namespace, [])
        for position, current in enumerate(existing):
            if current.id == annotation.id:
                existing[position] = annotation
                return
        existing.append(annotation)

    def for_namespace(self, namespace: str) -> list[CopilotAnnotation]:
        """Annotations for a namespace, empty when none were received."""
        return self.current.get(namespace, [])

    def snapshot(self) -> CopilotNamedAnnotationList:
        """Copy of the table that later updates do not affect."""
        return {namespace: list(items) for namespace, items in self.current.items()}
