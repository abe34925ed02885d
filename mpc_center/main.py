from __future__ import annotations

import logging
import os

import uvicorn


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(message)s")
    host = os.getenv("MPC_CENTER_HOST", "0.0.0.0")
    port = int(os.getenv("MPC_CENTER_PORT", os.getenv("PORT", "3000")))
    uvicorn.run("mpc_center.web_admin:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
