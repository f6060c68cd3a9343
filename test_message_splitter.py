#!/usr/bin/env python3
"""
Test script for message splitting functionality
"""
from demakai.utils.message_splitter import split_message, needs_splitting


def test_message_splitter():
    """Test the message splitting logic"""
    print("=" * 60)
    print("Testing Message Splitter for the WhatsApp message limit")
    print("=" * 60)

    # Test 1: Short message (should not split)
    print("\n📝 Test 1: Short message (under the limit)")
    short_msg = "📋 Berikut kemungkinan yang paling relevan: 82192 Fotokopi"
    assert not needs_splitting(short_msg, 4000)
    chunks = split_message(short_msg, 4000)
    assert chunks == [short_msg], "Short message should not be split"
    print("✅ PASS")

    # Test 2: Multi-line message splits on line boundaries
    print("\n📝 Test 2: Long multi-line message")
    lines = [f"{i}. [8219{i}] Kegiatan jasa {i:02d}" for i in range(1, 10)]
    long_msg = "\n".join(lines)
    chunks = split_message(long_msg, 60)
    print(f"Result: {len(chunks)} chunk(s)")
    assert len(chunks) > 1
    for idx, chunk in enumerate(chunks, 1):
        assert len(chunk) <= 60, f"Chunk {idx} exceeds 60 chars!"
    assert "\n".join(chunks).split("\n") == lines, "Lines must survive intact"
    print("✅ PASS")

    # Test 3: Exactly at the limit (should not split)
    print("\n📝 Test 3: Exactly 4000 chars")
    exact_msg = "A" * 4000
    assert not needs_splitting(exact_msg, 4000)
    assert len(split_message(exact_msg, 4000)) == 1, "4000-char message should not be split"
    print("✅ PASS")

    # Test 4: Single line just over the limit is cut
    print("\n📝 Test 4: 4001 chars (just over limit)")
    over_msg = "A" * 4001
    assert needs_splitting(over_msg, 4000)
    chunks = split_message(over_msg, 4000)
    assert [len(c) for c in chunks] == [4000, 1], "4001-char line should split into 2 chunks"
    print("✅ PASS")

    print("\n" + "=" * 60)
    print("✅ ALL TESTS PASSED!")
    print("=" * 60)


if __name__ == "__main__":
    test_message_splitter()
