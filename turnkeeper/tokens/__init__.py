"""Approximate token counting."""

from turnkeeper.tokens.estimator import Script, ScriptRatios, TokenEstimator, detect_script

__all__ = ["Script", "ScriptRatios", "TokenEstimator", "detect_script"]
