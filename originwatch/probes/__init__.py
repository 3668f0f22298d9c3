from originwatch.probes.classifier import classify_failure

__all__ = ["classify_failure"]
