"""Shared utility helpers."""

import argparse


def positive_int(value: str) -> int:
    """argparse type validator: integer >= 1."""
    ivalue = int(value)
    if ivalue < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {value}")
    return ivalue


def positive_float(value: str) -> float:
    """argparse type validator: number > 0."""
    fvalue = float(value)
    if fvalue <= 0:
        raise argparse.ArgumentTypeError(f"must be > 0, got {value}")
    return fvalue
