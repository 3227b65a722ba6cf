from typing import List


# Function to chunk text into overlapping fixed-size windows
def build_chunks(text: str, chunk_size: int = 1200, overlap: int = 200) -> List[str]:
    """
    Split text into character windows of at most ``chunk_size``.

    Consecutive windows share ``overlap`` characters, so each window starts
    ``chunk_size - overlap`` characters after the previous one.  CRLF is
    normalized and the text trimmed first; blank text yields no chunks.

    Args:
        text: Raw document text
        chunk_size: Maximum characters per chunk
        overlap: Characters shared by consecutive chunks (0 < overlap < chunk_size)

    Returns:
        List of chunk strings in document order
    """
    if not 0 < overlap < chunk_size:
        raise ValueError(
            f"overlap must satisfy 0 < overlap < chunk_size (got {overlap}, {chunk_size})"
        )

    cleaned = text.replace("\r\n", "\n").strip()
    if not cleaned:
        return []

    chunks = []
    start = 0
    while start < len(cleaned):
        end = min(start + chunk_size, len(cleaned))
        chunks.append(cleaned[start:end])
        if end >= len(cleaned):
            break
        start = end - overlap

    return chunks
