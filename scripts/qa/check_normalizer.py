"""Show how messages are normalized and which dates are detected.

Usage: python scripts/qa/check_normalizer.py "สอบวันที่ 24/12/2568" "1 ม.ค. 2567"
"""
import argparse
import os
import sys

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../../')))

from pcru_faq.engines.text_normalizer import text_normalizer, to_iso_date


def main():
    parser = argparse.ArgumentParser(description="Print normalized text and ISO dates")
    parser.add_argument("texts", nargs="+")
    parser.add_argument("--stopwords", default="", help="comma-separated stop-words")
    args = parser.parse_args()

    stopwords = [w.strip() for w in args.stopwords.split(",") if w.strip()]
    for text in args.texts:
        print(f"INPUT:      {text}")
        print(f"NORMALIZED: {text_normalizer.normalize(text, stopwords=stopwords)}")
        print(f"AS DATE:    {to_iso_date(text)}")
        print(f"DATES:      {text_normalizer.find_dates(text)}")
        print()


if __name__ == "__main__":
    main()
