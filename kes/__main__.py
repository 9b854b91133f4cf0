"""Entry point for ``python -m kes``."""
from kes.main import main

main()
