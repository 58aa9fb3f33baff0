"""Room x date occupancy grid."""

from grid.builder import CellMark, Grid, GridBuilder, IntegrityIssue, IssueKind, Placement, build_grid

__all__ = [
    "CellMark",
    "Grid",
    "GridBuilder",
    "IntegrityIssue",
    "IssueKind",
    "Placement",
    "build_grid",
]
