import asyncio
import sys

from fastmcp import Client


async def main(query: str):
    async with Client("http://localhost:8000/mcp") as client:
        tools = await client.list_tools()

        print(f"Available tools ({len(tools)}):")
        for tool in tools:
            print(f"* **{tool.name}**: {tool.description}")

        result = await client.call_tool('search_pages', {'query': query})
        print(result.content[0].text)

if __name__ == "__main__":
    asyncio.run(main(" ".join(sys.argv[1:]) or "search"))
