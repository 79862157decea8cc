"""Development entry point."""

from query_exporter.cli import main

if __name__ == "__main__":
    main()
