import sys
from pathlib import Path

import fncli

from . import config, db, users
from .core.errors import DaylistError
from .lib import ansi
from .logging_setup import setup_logging


def main():
    setup_logging(console_level=config.get_log_level())
    if not sys.stdout.isatty():
        ansi.use(ansi.PLAIN)
    db.init()
    users.ensure_user(config.get_user_id())
    fncli.autodiscover(Path(__file__).parent, "daylist")

    user_args = sys.argv[1:]
    argv = ["daylist", *(user_args or ["ls"])]
    try:
        code = fncli.dispatch(argv)
    except DaylistError as e:
        sys.stderr.write(f"{e}\n")
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
