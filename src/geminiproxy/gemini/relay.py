"""One-way stream relay utility."""

import asyncio

CHUNK_SIZE = 16384


async def copy_stream(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
) -> int:
    """
    Pipe data from reader to writer until EOF or error.

    Args:
        reader: Source stream (remote side).
        writer: Destination stream (client side).

    Returns:
        Number of bytes copied.
    """
    total = 0
    while True:
        try:
            data = await reader.read(CHUNK_SIZE)
            if not data:
                break
            writer.write(data)
            await writer.drain()
            total += len(data)
        except OSError:
            break
    return total
