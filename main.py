#!/usr/bin/env python3
"""DICOM Loader - エントリーポイント"""
import sys

from dicom_loader.cli import main


if __name__ == "__main__":
    sys.exit(main())
