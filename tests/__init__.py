"""
Crosswalk Test Suite

This package contains tests for the crosswalk engine:
- Unit tests for the observation store, model fitter and adjuster
- Integration tests for the configured pipeline
- Simulation checks that fits recover known definition biases

Run tests with:
    pytest tests/                    # All tests
    pytest tests/ -m unit            # Only unit tests
    pytest tests/ -m "not slow"      # Skip simulation-heavy tests
    pytest tests/ --cov=crosswalk    # With coverage
"""
