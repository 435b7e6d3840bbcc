"""Logging and metrics for kubecache."""
