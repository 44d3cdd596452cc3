# src/calocluster/errors.py
from __future__ import annotations


class ClusteringError(Exception):
    """Base class for all calocluster failures."""


class InvalidConfiguration(ClusteringError, ValueError):
    """
    Bad numeric parameters handed to a component at construction time:
    negative time window / expansion cut, negative half-lengths, zero-length
    axes, unknown option strings.
    """


class InvalidGeometry(ClusteringError, ValueError):
    """
    The crystal geometry or neighbour relation is malformed (index out of
    range, self loops, asymmetric adjacency, size mismatch). This points at
    an upstream geometry-construction defect, not at the event data.
    """


class InvalidSeed(InvalidGeometry):
    """Seed hit outside the geometry, without a recorded hit, or already claimed."""
