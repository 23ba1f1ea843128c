"""Service layer - TTL cache, experiment data services and collaborator seams.

Key classes:
- ExperimentCache: per-experiment TTL cache, one load in flight per key
- ExperimentDataService: metadata/channel/bulk/statistics queries for one format
- ExperimentRepository / InMemoryExperimentRepository: index store used by the scanner
- FileSystem / LocalFileSystem: directory listing
"""
