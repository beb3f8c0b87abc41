"""Association Bounded Context.

Responsible for relating lineament zones to reference features:
- Value Objects: PointFeature, ReferenceFeature, FeatureRecord,
  EnrichmentResult, OverlapResult, DistanceSummary
- Services: sample_features, enrichment, overlap_metrics, summarize_distances
"""
