"""Weld Rig Analyzer -- ingestion and query layer for weld-testing rig sensor exports.

This package provides tools for:
- Reading the rig's export formats (position, tensile, temperature and
  acceleration CSVs, TPC5 oscilloscope containers) into uniform channels
- Computing derived welding channels (currents, voltages, differentials)
- Bounding plot payloads by fixed-stride decimation over a time window
- Caching loaded experiments with a TTL and one load in flight per experiment
- Indexing experiment folders (JYY-MM-DD(n)) into a repository

Key principles:
- No interpolation: downsampling uses decimation only
- All-or-nothing loads: a reader exposes a complete ChannelSet or raises
- Bad rows are skipped and counted, never fatal unless no row survives

Main subpackages:
- analysis: Derived channels, resampling, statistics
- ingest: Format readers, format registry, directory scanner
- models: Data models (Channel, ChannelSet, ExperimentRecord, settings, results)
- services: TTL cache, experiment data services, repository and filesystem seams
"""

__all__ = []
