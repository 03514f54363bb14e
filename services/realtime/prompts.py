"""Prompt helpers for realtime artwork conversations."""

from __future__ import annotations

DEFAULT_INSTRUCTIONS = "You are a helpful assistant."


def artwork_instructions(title: str, facts: str = "", description: str = "", image_provided: bool = False) -> str:
	"""Return the session instructions grounding the model in one artwork."""
	visual_context = (
		"The user is looking at this painting right now and the image has been provided to you."
		if image_provided
		else "The user is looking at this painting right now."
	)
	return (
		f"You are an expert art historian analyzing the painting '{title}'.\n"
		"Here are the key facts about this artwork:\n"
		f"{facts.strip() or 'No specific facts provided.'}\n"
		f"Description: {description.strip()}\n\n"
		f"{visual_context}\n"
		"Your goal is to be engaging, educational, and brief.\n"
		"Do not give long lectures. Encourage the user to observe details in the painting.\n"
		"Answer any questions they have based on your knowledge and the visual context provided."
	)


def image_framing_text(title: str) -> str:
	"""Return the text block sent ahead of the artwork image."""
	return (
		f"This is an image of '{title}', the painting the visitor is standing in front of. "
		"Use it as visual context for the conversation."
	)


def greeting_instructions() -> str:
	"""Return the instructions for the model's opening turn."""
	return "Greet the visitor in one or two sentences and invite them to ask about the painting."
