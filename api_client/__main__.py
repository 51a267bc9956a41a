
import sys
import os
import logging

# Allow running as "python api_client/" by adding parent to path
if __package__ in (None, "") and not hasattr(sys, "frozen"):
    path = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    sys.path.insert(0, path)

from platformdirs import user_log_dir

from api_client.config import APP_NAME
from api_client.tui import ApiClientTui
from api_client.workspace import WorkspaceStore


def main():
    # Log to a file, stderr belongs to the terminal UI
    log_dir = user_log_dir(APP_NAME)
    os.makedirs(log_dir, exist_ok=True)
    logging.basicConfig(
        filename=os.path.join(log_dir, "api-client.log"),
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    store = WorkspaceStore()
    if len(sys.argv) > 1:
        store.open(sys.argv[1])

    app = ApiClientTui(store=store)
    app.run()


if __name__ == "__main__":
    main()
