"""
Message splitting utility for the WhatsApp gateway's message size limit.
"""
from typing import List

from demakai import config


def split_message(message: str, max_length: int = config.MAX_MESSAGE_LENGTH) -> List[str]:
    """
    Split a long message into parts that fit the gateway's character limit.

    Splits on line boundaries so list entries stay intact. A single line
    longer than the limit is cut into fixed-size pieces.

    Args:
        message: The message to split
        max_length: Maximum length per part (default: MAX_MESSAGE_LENGTH)

    Returns:
        List of message parts, each at most max_length characters
    """
    if len(message) <= max_length:
        return [message]

    chunks = []
    current = ""

    for line in message.split("\n"):
        if len(current) + len(line) + 1 > max_length:
            if current.strip():
                chunks.append(current.strip())
            current = ""

            if len(line) > max_length:
                chunks.extend(line[i:i + max_length] for i in range(0, len(line), max_length))
                continue
        current += line + "\n"

    if current.strip():
        chunks.append(current.strip())

    return chunks


def needs_splitting(message: str, max_length: int = config.MAX_MESSAGE_LENGTH) -> bool:
    """Check if a message needs to be split"""
    return len(message) > max_length
