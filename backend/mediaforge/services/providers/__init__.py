"""Provider implementations.

Synchronous providers (sync_path.py drives them):
  gemini_image: POST generateContent → inline bytes
  fal_media   : submit to fal queue → poll → result URL → (upscale) → bytes

Asynchronous providers (job_lifecycle.py drives them):
  veo_video   : POST predictLongRunning → operation name → poll operation
"""
