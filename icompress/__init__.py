"""iCompressVideo: upload, transform and publish videos."""
