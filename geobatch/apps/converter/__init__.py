"""
Converter App - Resumable Batch Geocoding

Responsibilities:
- Convert a 3-column region of a dataset between addresses and coordinates
- Process rows in bounded slices, one slice per invocation
- Persist a checkpoint after every slice (Redis or state files)
- Retry rate-limited and faulty lookups with bounded backoff
- Arm a continuation (APScheduler, Redis job store) until every row is done

Output:
- Converted values or error markers written in place
- Progress and completion summary in the status cell right of the region
"""
