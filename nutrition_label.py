#!/usr/bin/env python3

"""
Validate and export bilingual nutrition labels.
"""

# local repo modules
import nutrilabel.cli


if __name__ == "__main__":
	nutrilabel.cli.main()
