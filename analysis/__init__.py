"""
Extract analysis package

Streaming decode and structural metrics for OSM PBF extracts.
"""

from .decoder import ElementKinds, OsmElement, read_elements
from .stream_analyzer import StreamAnalyzer

__all__ = [
    'ElementKinds',
    'OsmElement',
    'read_elements',
    'StreamAnalyzer'
]
