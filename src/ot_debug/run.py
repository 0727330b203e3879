# run.py
# Entry point. Config and wiring only, no logic lives here.

from ot_debug import display
from ot_debug.config import Settings, configure_logging
from ot_debug.harness import DebugSession
from ot_debug.server import SERVER_NAME, build_server


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings)

    session = DebugSession(settings=settings)
    server = build_server(session)

    display.banner(SERVER_NAME)
    server.run()


if __name__ == "__main__":
    main()
