"""
Chapter reader core package.

This package currently focuses on the chapter pipeline. It exposes
dataclasses for works, chapters, images and OCR extractions, storage helpers,
a bounded-concurrency image downloader, pluggable OCR and translation
collaborators, and an orchestrator that drives each chapter through its
download and text-extraction stages.
"""
