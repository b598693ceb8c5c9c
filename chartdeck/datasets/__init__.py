"""Datasets: named tables stored separately from the charts that use them.

Detection classifies pasted or fetched text, stats derives metadata, and
the manager owns create / update / rename / delete against a DatasetStore.
"""
