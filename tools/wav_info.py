# tools/wav_info.py
import sys
import wave

path = sys.argv[1] if len(sys.argv) > 1 else "segment.wav"

with wave.open(path, "rb") as wf:
    frames = wf.getnframes()
    rate = wf.getframerate()
    print("sample_rate:", rate)
    print("channels:", wf.getnchannels())
    print("sample_width_bytes:", wf.getsampwidth())
    print("frames:", frames)
    print("duration_s:", round(frames / rate, 3) if rate else 0.0)
