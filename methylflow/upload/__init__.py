"""Publish final outputs of a run into the output directory.
"""
