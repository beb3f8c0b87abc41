"""Terrain Bounded Context.

Responsible for raster-only lineament zone extraction:
- Value Objects: ElevationGrid, GradientField, Threshold, ZoneMask, ZoneArea,
  OrientationBin, DistanceFields
- Services: gradient_field, percentile_threshold, zone_mask, cell_areas,
  orientation_histogram, distance_fields
"""
