"""Ingest package - format readers, format registry and experiment discovery.

This package handles:
- Reading position (tab), tensile (semicolon), temperature and acceleration
  CSV exports
- Reading TPC5 oscilloscope containers (HDF5) with two-stage calibration
- Locating each format's file inside an experiment folder
- Scanning a root folder and indexing experiment folders

Key classes:
- ChannelReader: shared validate/load/accessor contract
- PositionCsvReader, TensileCsvReader, TemperatureCsvReader,
  AccelerationCsvReader, Tpc5Reader: one per format
- FormatAdapter: locator + reader factory used by the service layer
- DirectoryScanner: folder gate, journal gate and flag detection

Design principle:
- Readers produce validated ChannelSet objects
- Per-row problems are counted in a RowSkipLog, not raised
"""
