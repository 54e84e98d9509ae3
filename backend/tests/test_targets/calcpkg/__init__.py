"""Sample target package loaded by the reflection tests."""
