"""Describes the SnapChef domain. Centres around the `ResolutionPipeline`.

Why is this hard?

- Both questions we ask of an image (is it food, what is the recipe) are
  answered by vision models behind slow, expensive apis.
- So answers are cached by image content and written through to the store.
- The store is keyed by the image alone. Preferences only shape new recipes.
- Every call shares one deadline per request.

The models and the store are passed in, so both can be faked.
"""
