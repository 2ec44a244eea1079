"""
Feature packages.
"""
