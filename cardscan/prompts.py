CHARACTER_EXTRACTION_PROMPT = """Analyze the attached photo of the card. I have two specific tasks for you:

Task 1: Data Extraction (JSON) Look at the top right of the card and extract the numeric values associated with the icons:

Health: The number next to the Heart icon.

Attack: The number next to the Sword icon.

Name: The character name text.

Return them as a JSON object of the form {"health": <integer>, "attack": <integer>, "name": "<string>"}.

Task 2: Visual Asset Generation Create a clean, flat vector-style image of the character isolated from the card.

Dimensions: 1:1 aspect ratio (suitable for 200x200px).

Style: Flat 2D vector art, minimalist, clean lines, no gradients, no shading.

Constraints: Remove the card background, text, numbers, and any visual noise (like the hand holding the card). Keep the character centered and fully visible on a solid white background.

Final Output: Provide the JSON object for Task 1 and the generated image for Task 2."""
