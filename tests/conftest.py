"""
Pytest configuration file

Adds the project root to the Python path so tests can import the package
without installing it.
"""
import sys
import os

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)
