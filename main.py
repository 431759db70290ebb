"""Platform entry point (main.py auto-detection); starts the harvester API."""
import os
import sys

if __name__ == "__main__":
    from harvester.run import main

    sys.exit(main(["serve", "--port", os.environ.get("PORT", "3000")]))
