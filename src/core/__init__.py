"""
Core business logic for video uploads.

This module is framework-agnostic - it doesn't import FastAPI, boto3,
or any infrastructure concerns. The pipeline talks to ffmpeg and object
storage only through Protocols, so it can be tested with fakes.
"""
