"""Run the editor with `python -m keyframecurve`."""
import sys

from keyframecurve.app.main import main

if __name__ == "__main__":
    sys.exit(main())
