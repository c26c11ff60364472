"""
Model Output Name Helpers

ONNX exports of the same sentence-embedding model do not agree on the name
of their output tensor ("sentence_embedding", "embeddings",
"last_hidden_state", ...). These helpers inspect what a session declares,
pick the name to request, and turn an "unknown output name" runtime failure
into a message that names both sides of the mismatch.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

PREFERRED_OUTPUT_NAMES = (
    "sentence_embedding",
    "embeddings",
    "last_hidden_state",
    "token_embeddings",
)

_OUTPUT_NAME_ERROR_MARKERS = (
    "invalid output name",
    "output name not found",
    "unknown output",
)


def inspect_output_names(session: Any) -> List[str]:
    """Return the output names declared by an inference session, in order."""
    return [node.name for node in session.get_outputs()]


def inspect_input_names(session: Any) -> List[str]:
    return [node.name for node in session.get_inputs()]


def choose_output_name(
    declared: Sequence[str],
    configured: Optional[str] = None,
) -> Optional[str]:
    """
    Pick the output tensor to request.

    A configured name always wins, even if the model does not declare it;
    the mismatch then surfaces at inference time with a full diagnostic.
    Otherwise the first preferred name the model declares is used, falling
    back to the first declared output.
    """
    if configured:
        return configured

    for name in PREFERRED_OUTPUT_NAMES:
        if name in declared:
            return name

    return declared[0] if declared else None


def is_output_name_error(exc: BaseException) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in _OUTPUT_NAME_ERROR_MARKERS)


def describe_output_name_error(
    expected: Optional[str],
    available: Sequence[str],
    original: Optional[BaseException] = None,
) -> str:
    actual = available[0] if available else "unknown"
    lines = [
        "Model output name mismatch.",
        f'Expected output name: "{expected or "unknown"}"',
        f'Model declares: "{actual}"',
        f"All model outputs: {', '.join(available) if available else 'none'}",
        "Set MALINALI_EMBEDDING_OUTPUT_NAME to one of the declared outputs, "
        "or re-export the model with the expected output name.",
    ]
    if original is not None:
        lines.append(f"Original error: {original}")
    return "\n".join(lines)
