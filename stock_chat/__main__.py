from __future__ import annotations

import os

import uvicorn


def main() -> None:
    """Serve the stock chat API; HOST and PORT come from the environment."""
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("stock_chat.app:app", host=host, port=port)


if __name__ == "__main__":
    main()
