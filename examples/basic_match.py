"""Basic example of using centreline-match."""

import asyncio

from centreline_match import CentrelineMatcher


async def main():
    # Settings come from CENTRELINE_MATCH_* environment variables; the corpus
    # is stored in ~/.centreline-match by default.
    matcher = CentrelineMatcher()

    try:
        # Download the street centreline unless the stored copy is fresh
        refresh = await matcher.refresh_corpus(progress=True)
        print(f"Corpus: {refresh.segments_stored} segments (cached: {refresh.from_cache})")

        # Single disruption
        print("=" * 60)
        print("Single Disruption")
        print("=" * 60)

        title = "Water main repair on Queen Street West near Spadina"
        matcher.register({"external_id": "example-1", "title": title})
        results = await matcher.match_one("example-1", title)

        if results:
            for result in results:
                print(f"Street: {result.street_name} ({result.match_type.value}, {result.confidence:.2f})")
                print(f"Address: {result.address_full}")
                print(f"Segments: {len(result.segments)}")
            matcher.store_mappings(results)
        else:
            print(f"No street found in: {title}")

        # Segments around a point
        print("\n" + "=" * 60)
        print("Segments Near Queen St W & Spadina Ave")
        print("=" * 60)

        for segment in matcher.segments_near(43.6487, -79.3960, radius_m=150):
            print(f"  {segment.centreline_id}: {segment.street_name}")
    finally:
        await matcher.close()


if __name__ == "__main__":
    asyncio.run(main())
