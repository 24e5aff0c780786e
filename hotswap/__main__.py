"""
Minimal entry point so the supervisor can be started with `python -m hotswap`.
"""
from hotswap.main import main

if __name__ == "__main__":
    main()
