"""Instruction prompts for the three summarization calls."""

visual_summary = """You are analyzing still frames taken from a video at regular intervals across its full length. Using only these frames, summarize what you see.

## Instructions:
1. Describe the visual content, the scenes, and what appears to be happening
2. Note any on-screen text, diagrams, demonstrations, or other visual aids
3. Identify the setting and the people or objects shown
4. Describe visual transitions or changes over the course of the video

Please provide your visual analysis:"""


audio_summary = """You are analyzing the audio transcript of a video. Using only this transcript, summarize the spoken content.

## Transcript:
{transcript}

## Instructions:
1. Summarize the main topics and key points discussed
2. Identify the speaker's main arguments or explanations
3. Note important terminology, names, or concepts that are mentioned
4. Highlight any conclusions or takeaways

Please provide your audio/transcript analysis:"""


consolidated_summary = """You have two separate analyses of the same video: one built from its visual frames and one built from its audio transcript. Consolidate them into a single, comprehensive overview.

## Visual Analysis:
{visual_summary}

## Audio/Transcript Analysis:
{audio_summary}

## Instructions:
1. Synthesize both analyses into one cohesive summary
2. Explain how the visual and audio content complement each other
3. Highlight the main themes, key points, and takeaways
4. Point out any discrepancies between the two analyses, or insights that only appear when both are combined
5. Produce a well-structured overview that captures the full essence of the video

Please provide your consolidated summary:"""
