import sys

from dereport.cli import main

# e.g. python run_comparison.py --config data/run.json
if __name__ == "__main__":
    sys.exit(main())
