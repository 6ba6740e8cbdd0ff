import asyncio


async def byte_stream(data: bytes, piece_size: int = 4):
    """Yield data in small pieces, giving other tasks a turn between pieces."""
    for start in range(0, len(data), piece_size):
        await asyncio.sleep(0)
        yield data[start:start + piece_size]
