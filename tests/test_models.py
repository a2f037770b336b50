"""Unit tests for the shared data model."""

import unittest

from polyphony.models import (
    AudioOutputInfo,
    AudioQuality,
    PlaylistSearchResult,
    ProviderId,
    Track,
    format_source,
)


class TestProviderId(unittest.TestCase):
    """Test provider id parsing and display names."""

    def test_parse_known(self):
        self.assertEqual(ProviderId.parse("Qobuz"), ProviderId.QOBUZ)
        self.assertEqual(ProviderId.parse(" spotify "), ProviderId.SPOTIFY)
        self.assertEqual(ProviderId.parse(ProviderId.TIDAL), ProviderId.TIDAL)

    def test_parse_unknown_never_raises(self):
        """Unrecognised and empty sources map to unknown."""
        self.assertEqual(ProviderId.parse("soundcloud"), ProviderId.UNKNOWN)
        self.assertEqual(ProviderId.parse(""), ProviderId.UNKNOWN)
        self.assertEqual(ProviderId.parse(None), ProviderId.UNKNOWN)
        self.assertEqual(ProviderId.parse(42), ProviderId.UNKNOWN)

    def test_display_names(self):
        self.assertEqual(ProviderId.APPLE_MUSIC.display_name, "Apple Music")
        self.assertEqual(ProviderId.UNKNOWN.display_name, "Streaming")

    def test_format_source(self):
        self.assertEqual(format_source("youtube_music"), "YouTube Music")
        self.assertEqual(format_source("bandcamp"), "BANDCAMP")
        self.assertEqual(format_source("  "), "Streaming")


class TestAudioQuality(unittest.TestCase):
    """Test the quality formatting policy."""

    def test_all_numeric_facets(self):
        quality = AudioQuality(bitrate=4608, sample_rate=96000, bit_depth=24, label="hi_res")
        self.assertEqual(quality.formatted(), "4608 kbps • 96.0kHz/24bit")

    def test_numeric_facets_win_over_label(self):
        quality = AudioQuality(bitrate=320, label="lossless")
        self.assertEqual(quality.formatted(), "320 kbps")

    def test_label_only_when_no_numeric_facet(self):
        self.assertEqual(AudioQuality(label="preview").formatted(), "preview")

    def test_partial_facets(self):
        self.assertEqual(AudioQuality(sample_rate=44100).formatted(), "44.1kHz")
        self.assertEqual(AudioQuality(bit_depth=16).formatted(), "16bit")

    def test_nothing_known(self):
        quality = AudioQuality()
        self.assertEqual(quality.formatted(), "")
        self.assertTrue(quality.is_empty())


class TestTrack(unittest.TestCase):
    """Test track helpers and records."""

    def test_unknown_source_formats(self):
        """An unknown source string must not break formatting."""
        track = Track(id="1", title="Song", artist="Artist", source="napster")
        self.assertEqual(track.source, ProviderId.UNKNOWN)
        self.assertEqual(track.formatted_source, "Streaming")

    def test_formatted_duration(self):
        self.assertEqual(Track(id="1", title="t", artist="a", duration=185).formatted_duration, "03:05")
        self.assertEqual(Track(id="1", title="t", artist="a").formatted_duration, "")

    def test_record_excludes_stream_url(self):
        track = Track(
            id="7",
            title="Blue in Green",
            artist="Miles Davis",
            album="Kind of Blue",
            duration=337,
            source="qobuz",
            quality=AudioQuality(bitrate=1411, sample_rate=44100, bit_depth=16, label="lossless"),
            stream_url="https://example.com/stream",
        )
        record = track.to_record()
        self.assertNotIn("stream_url", record)
        self.assertEqual(record["source"], "qobuz")
        self.assertEqual(record["bit_depth"], 16)

        restored = Track.from_record(record)
        self.assertIsNone(restored.stream_url)
        self.assertEqual(restored.model_dump(), track.model_dump(exclude={"stream_url"}) | {"stream_url": None})

    def test_from_record_defaults(self):
        track = Track.from_record({"id": "x"})
        self.assertEqual(track.title, "Unknown Title")
        self.assertEqual(track.artist, "Unknown Artist")
        self.assertEqual(track.album, "Unknown Album")
        self.assertEqual(track.source, ProviderId.UNKNOWN)


class TestPlaylistPlaceholder(unittest.TestCase):
    def test_placeholder_is_marked(self):
        placeholder = PlaylistSearchResult.placeholder("spotify", "KeyError: 'name'")
        self.assertTrue(placeholder.is_placeholder)
        self.assertTrue(placeholder.id.startswith("error_"))
        self.assertEqual(placeholder.name, "Error Loading Playlist")
        self.assertEqual(placeholder.owner, "Unknown")
        self.assertEqual(placeholder.track_count, 0)
        self.assertFalse(placeholder.is_public)
        self.assertEqual(placeholder.source, ProviderId.SPOTIFY)
        self.assertIn("Failed to load playlist data", placeholder.description)

    def test_placeholders_have_distinct_ids(self):
        ids = {PlaylistSearchResult.placeholder("qobuz").id for _ in range(5)}
        self.assertEqual(len(ids), 5)


class TestAudioOutputInfo(unittest.TestCase):
    def test_formatted_with_format(self):
        info = AudioOutputInfo(output_bitrate=1411, output_sample_rate=44100, output_bit_depth=16, format="flac")
        self.assertTrue(info.has_info)
        self.assertEqual(info.formatted(), "1411 kbps • 44.1kHz/16bit • FLAC")

    def test_no_info(self):
        self.assertFalse(AudioOutputInfo(codec="aac").has_info)


if __name__ == "__main__":
    unittest.main()
