import sys

from image_resizer.main import run

sys.exit(run())
