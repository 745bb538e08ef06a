"""Prospective detection of disease outbreaks in surveillance data."""

from OutbreakScan.analysis import ProspectiveAnalysis
